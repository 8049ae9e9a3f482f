import logging

from telegram import Bot

from .config import settings

logger = logging.getLogger(__name__)


async def _send_admin_message(message: str):
    token = settings.TOKEN
    chat_id = settings.CHAT_ID

    if not token or not chat_id:
        logger.warning("Telegram token or chat_id not configured. Skipping notification.")
        return False

    bot = Bot(token=token)
    try:
        await bot.send_message(chat_id=chat_id, text=message, parse_mode='Markdown')
    except Exception as e:
        logger.error(f"Failed to send Telegram notification: {e}")
        return False
    return True


def format_order_message(order_details: dict) -> str:
    message = "*New order!*\n\n"
    message += f"*Order ID:* `{order_details['order_id']}`\n"
    message += f"*Customer:* {order_details['customer_name']} (`{order_details['customer_email']}`)\n"
    message += f"*Taken by:* {order_details['employee_name']}\n"
    if order_details['customer_address']:
        message += f"*Address:*\n`{order_details['customer_address']}`\n\n"
    else:
        message += "\n"

    message += "*Items:*\n"
    for item in order_details['items']:
        message += f"  - *{item['name']}* x `{item['quantity']}` @ {item['unit_price']:.2f}\n"
    message += f"\n*Total:* {order_details['total']:.2f}"

    if order_details['comment']:
        message += f"\n\n*Comment:*\n_{order_details['comment']}_"
    return message


def format_low_stock_message(flowers: list) -> str:
    message = "*Low stock*\n\n"
    for flower in flowers:
        message += f"  - *{flower['name']}* (#{flower['id']}): `{flower['quantity_in_stock']}` left\n"
    return message


async def send_new_order_notification(order_details: dict):
    await _send_admin_message(format_order_message(order_details))


async def send_low_stock_notification(flowers: list):
    if not flowers:
        return
    await _send_admin_message(format_low_stock_message(flowers))
