"""Customer- and restaurant-facing texts (pt-BR)."""
from datetime import date, time
from typing import Optional, Sequence

from vinhopay.models.restaurant import Restaurant

BENEFIT = "Isenção de rolha (VinhoPay)"

GREETING = "Oi! 😊 Qual seu nome?"
ASK_NAME_AGAIN = "Pode me dizer seu nome? (ex.: Luciano)"
NO_RESTAURANTS = "Ainda não temos restaurantes parceiros cadastrados 😔"
CHOICE_NOT_A_NUMBER = "Por favor, responda apenas com o número do restaurante."
CHOICE_OUT_OF_RANGE = "Número inválido. Escolha um da lista."
ASK_PARTY_SIZE_AGAIN = "Quantas pessoas? (Digite um número entre 1 e 50)"
MONTH_INVALID = "Mês inválido. Digite um número de 1 a 12."
ASK_DAY = "Qual o dia do mês? (1 a 31)"
DAY_INVALID = "Dia inválido para esse mês. Digite novamente (ex: 15)."
ASK_TIME = "Qual o horário desejado? (ex: 19:30)"
TIME_INVALID = "Horário inválido. Use o formato HH:MM (ex: 19:30)."
CONFIRM_AGAIN = "Digite 1 para Confirmar ou 0 para Cancelar."
CANCELLED = "❌ Reserva cancelada. Se quiser, escolha outro restaurante."
RESTART = "Vamos recomeçar 🙂 Não encontrei sua reserva em andamento."
WAITING_RESTAURANT = (
    "⏳ Sua reserva está aguardando a resposta do restaurante. "
    "Assim que ele responder, eu te aviso por aqui."
)

RESTAURANT_NOTHING_PENDING = "Não há nenhuma reserva pendente de resposta no momento. 🙂"
RESTAURANT_ALREADY_ANSWERED = "Essa reserva já foi respondida. ✅ Obrigado!"
RESTAURANT_ASK_REASON_TEXT = "Descreva rapidamente o motivo (mínimo 3 caracteres):"
RESTAURANT_CONFIRMED_ACK = "✅ Reserva confirmada. Obrigado! O cliente já foi avisado."
RESTAURANT_REJECTED_ACK = "Reserva recusada. O cliente já foi avisado. Obrigado!"

REASON_FULL = "Lotado"
REASON_SCHEDULE = "Horário indisponível"

FEEDBACK_ASK_WINE = "🍷 Qual vinho vocês tomaram? (ou 0 para pular)"
FEEDBACK_ASK_DISH = "🍽 E qual prato vocês pediram? (ou 0 para pular)"
FEEDBACK_ASK_RATING = "⭐ De 1 a 5, que nota você dá para a experiência? (ou 0 para pular)"
FEEDBACK_RATING_INVALID = "Nota inválida. Digite um número de 1 a 5 (ou 0 para pular)."
FEEDBACK_ASK_COMMENT = "💬 Quer deixar algum comentário? (ou 0 para pular)"
FEEDBACK_TEXT_EMPTY = "Não entendi 🙂 Responda com um texto (ou 0 para pular)."
FEEDBACK_THANKS = "🙏 Obrigado pelo feedback! Quando quiser reservar de novo, é só mandar uma mensagem."
FEEDBACK_LOST = "Não encontrei sua avaliação em andamento, mas tudo bem! 🙂 Mande qualquer mensagem para fazer uma reserva."


def format_date_br(value: Optional[date]) -> str:
    return value.strftime("%d/%m/%Y") if value else "(data)"


def format_time(value: Optional[time]) -> str:
    return value.strftime("%H:%M") if value else "(horário)"


def restaurant_menu(restaurants: Sequence[Restaurant]) -> str:
    msg = "🍷 Qual restaurante você quer reservar?\n\n"
    for i, r in enumerate(restaurants, 1):
        place = " - ".join(p for p in (r.neighborhood, r.city) if p)
        msg += f"{i}) {r.name}{f' ({place})' if place else ''}\n"
    msg += "\nResponda apenas com o número."
    return msg


def welcome(name: str) -> str:
    return f"Olá, {name}! ✅"


def welcome_no_restaurants(name: str) -> str:
    return f"Olá, {name}! ✅ Cadastro concluído.\n\n{NO_RESTAURANTS}"


def restaurant_chosen(restaurant_name: str) -> str:
    return f"✅ Você escolheu:\n{restaurant_name}\n\nPara quantas pessoas será a reserva?"


def month_menu() -> str:
    return (
        "Para qual mês?\n"
        "Digite o número:\n"
        "1) Janeiro\n2) Fevereiro\n3) Março\n4) Abril\n5) Maio\n6) Junho\n"
        "7) Julho\n8) Agosto\n9) Setembro\n10) Outubro\n11) Novembro\n12) Dezembro"
    )


def confirm_summary(restaurant_name: str, party_size: int, reserved_date: date, reserved_time: time) -> str:
    return (
        "✅ Confirme sua reserva:\n\n"
        f"🍽 Restaurante: {restaurant_name}\n"
        f"👥 Pessoas: {party_size}\n"
        f"📅 Data: {format_date_br(reserved_date)}\n"
        f"⏰ Horário: {format_time(reserved_time)}\n"
        f"🎁 Benefício: {BENEFIT}\n\n"
        "Digite:\n1 - Confirmar\n0 - Cancelar"
    )


def sent_to_restaurant(restaurant_name: str) -> str:
    return (
        f"📨 Enviei sua solicitação para o restaurante *{restaurant_name}*.\n"
        "Assim que ele confirmar, eu te aviso por aqui."
    )


def restaurant_request(
    customer_name: Optional[str],
    customer_phone: str,
    party_size: int,
    reserved_date: date,
    reserved_time: time,
) -> str:
    return (
        "🍷 VinhoPay - Nova reserva\n\n"
        f"Cliente: {customer_name or 'Cliente'}\n"
        f"WhatsApp: {customer_phone}\n"
        f"👥 Pessoas: {party_size}\n"
        f"📅 Data: {format_date_br(reserved_date)}\n"
        f"⏰ Horário: {format_time(reserved_time)}\n"
        f"🎁 Benefício: {BENEFIT}\n\n"
        "Digite:\n1 - Confirmar\n0 - Recusar"
    )


def restaurant_confirm_menu(customer_name: Optional[str], reserved_date: date, reserved_time: time) -> str:
    return (
        f"Reserva pendente de {customer_name or 'Cliente'} "
        f"({format_date_br(reserved_date)} às {format_time(reserved_time)}).\n\n"
        "Digite:\n1 - Confirmar\n0 - Recusar"
    )


def restaurant_reason_menu() -> str:
    return (
        "Qual o motivo da recusa?\n\n"
        f"1 - {REASON_FULL}\n"
        f"2 - {REASON_SCHEDULE}\n"
        "3 - Outro motivo"
    )


def customer_confirmed(restaurant_name: str, reserved_date: date, reserved_time: time) -> str:
    return (
        f"🎉 Sua reserva no *{restaurant_name}* está confirmada!\n\n"
        f"📅 Data: {format_date_br(reserved_date)}\n"
        f"⏰ Horário: {format_time(reserved_time)}\n"
        f"🎁 Benefício: {BENEFIT}\n\n"
        "Bom apetite! 🍷"
    )


def customer_rejected(restaurant_name: str, reason: str) -> str:
    return (
        f"😔 O restaurante *{restaurant_name}* não pôde confirmar sua reserva.\n"
        f"Motivo: {reason}\n\n"
        "Mande qualquer mensagem para escolher outro restaurante."
    )


def feedback_opening(customer_name: Optional[str], restaurant_name: str) -> str:
    greeting = f"Oi, {customer_name}!" if customer_name else "Oi!"
    return (
        f"{greeting} 🍷 Como foi sua visita ao *{restaurant_name}*?\n\n"
        "Qual vinho vocês tomaram? (ou 0 para pular)"
    )
