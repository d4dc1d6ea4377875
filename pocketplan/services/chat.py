# pocketplan/services/chat.py
import logging

from flask import current_app

from ..logic.chat_parser import parse_message
from ..logic.consolidation import category_name
from ..models import db, ORIGIN_CHAT, Debt, DebtPayment, Expense, IncomeSource
from .summary import calculate_financial_summary
from .utils import utcnow

logger = logging.getLogger(__name__)

AI_CHAT_FUNCTION = "ai-chat"

# fixed source name for chat income; the free text stays on the intent
EXTRA_INCOME = {"es": "Ingreso extra", "en": "Extra Income"}

REPLIES = {
    "es": {
        "expense": "¡Registrado! Gasto de ${amount:,.2f} en {text}. Tu plan se actualizará automáticamente.",
        "income": "¡Excelente! Ingreso extra de ${amount:,.2f} registrado. ¿Quieres asignarlo a tu meta de ahorro?",
        "debt_payment": "¡Excelente pago! Registré ${amount:,.2f} de pago de {text}. Saldo restante: ${balance:,.2f}.",
        "debt_unknown": "Anoté tu pago de ${amount:,.2f}, pero no encontré una deuda llamada \"{text}\".",
        "plan_update": "¡Plan actualizado! Recalculé tu resumen con tus datos más recientes.",
        "help": ("Te puedo ayudar con:\n"
                 "• \"Gasté $50 en comida\"\n"
                 "• \"Recibí $200 extra\"\n"
                 "• \"Pagué $100 de tarjeta\"\n"
                 "• \"Actualizar mi plan\""),
    },
    "en": {
        "expense": "Logged! ${amount:,.2f} spent on {text}. Your plan will update automatically.",
        "income": "Great! Extra income of ${amount:,.2f} recorded. Want to put it toward a savings goal?",
        "debt_payment": "Nice payment! Recorded ${amount:,.2f} to {text}. Remaining balance: ${balance:,.2f}.",
        "debt_unknown": "Noted your ${amount:,.2f} payment, but I couldn't find a debt named \"{text}\".",
        "plan_update": "Plan updated! I recalculated your summary with your latest data.",
        "help": ("I can help with:\n"
                 "• \"I spent $50 on food\"\n"
                 "• \"I received $200 extra\"\n"
                 "• \"I paid $100 to my card\"\n"
                 "• \"Update my plan\""),
    },
}


def find_debt(user_id: str, text: str):
    """Active debt whose creditor appears in `text` or vice versa."""
    needle = (text or "").strip().lower()
    if not needle:
        return None
    for d in Debt.query.filter_by(user_id=user_id, status="active").order_by(Debt.id).all():
        name = (d.creditor or "").lower()
        if name and (name in needle or needle in name):
            return d
    return None


def _assistant_reply(user_id: str, message: str):
    """Free-form answer from the hosted assistant, or None when unavailable."""
    functions = current_app.functions
    if not functions.configured:
        return None
    try:
        data = functions.invoke(AI_CHAT_FUNCTION, {"message": message, "userId": user_id})
    except Exception as e:
        logger.warning("Assistant function failed for user=%s, using canned help: %s", user_id, e)
        return None
    reply = data.get("message")
    if not isinstance(reply, str) or not reply.strip():
        return None
    return reply


def handle_message(user_id: str, message: str) -> dict:
    """
    Parse a chat message, write the record it describes and answer with a
    canned reply in the message's language. Messages no pattern matches go
    to the hosted assistant when one is configured.
    """
    intent = parse_message(message)
    replies = REPLIES[intent.language]
    today = utcnow().date()
    record = None
    reply_key = intent.kind

    if intent.kind == "help":
        reply = _assistant_reply(user_id, message) or replies["help"]
        return {"reply": reply, "intent": intent._asdict(), "record": None}

    if intent.kind == "expense":
        obj = Expense(
            user_id=user_id,
            amount=intent.amount,
            category=category_name(intent.category),
            description=intent.text,
            date=today,
            is_recurring=False,
            origin=ORIGIN_CHAT,
        )
        db.session.add(obj)

    elif intent.kind == "income":
        obj = IncomeSource(
            user_id=user_id,
            source_name=EXTRA_INCOME[intent.language],
            amount=intent.amount,
            frequency="monthly",
            is_active=True,
            origin=ORIGIN_CHAT,
        )
        db.session.add(obj)

    elif intent.kind == "debt_payment":
        obj = find_debt(user_id, intent.text)
        if obj is None:
            reply_key = "debt_unknown"
        else:
            db.session.add(DebtPayment(
                user_id=user_id,
                debt_id=obj.id,
                amount=intent.amount,
                payment_date=today,
                notes=message,
            ))
            obj.current_balance = round(max(0.0, obj.current_balance - intent.amount), 2)
            if obj.current_balance <= 0:
                obj.status = "paid"

    else:
        obj = None

    try:
        db.session.flush()
        calculate_financial_summary(user_id, today=today)
        db.session.commit()
    except Exception:
        db.session.rollback()
        logger.exception("Chat dispatch failed for user=%s intent=%s", user_id, intent.kind)
        raise

    if obj is not None:
        record = obj.to_dict()

    text = intent.text or ("deuda" if intent.language == "es" else "debt")
    if intent.kind == "debt_payment" and obj is not None:
        text = obj.creditor
    reply = replies[reply_key].format(
        amount=intent.amount or 0.0,
        text=text,
        balance=(obj.current_balance if isinstance(obj, Debt) else 0.0),
    )
    logger.info("Chat user=%s intent=%s", user_id, intent.kind)
    return {"reply": reply, "intent": intent._asdict(), "record": record}
