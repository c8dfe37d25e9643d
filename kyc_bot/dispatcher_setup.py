"""
Регистрация обработчиков обоих пулов и мост от приёма обновлений к шине.
"""
from aiogram.types import Update
from loguru import logger

from kyc_bot.handlers.customer.policy import PolicyHandler
from kyc_bot.handlers.customer.registration import RegistrationHandler
from kyc_bot.handlers.customer.start import StartHandler
from kyc_bot.handlers.moderator.approval import ApprovalHandler
from kyc_bot.handlers.moderator.pending import PendingHandler
from kyc_bot.routing.registry import HandlerRegistry
from kyc_bot.services.event_bus import (
    TOPIC_MOD_CALLBACK_QUERY,
    TOPIC_MOD_CHANNEL_POST,
    TOPIC_MOD_MESSAGE,
    EventBus,
)

CUSTOMER_ALLOWED_UPDATES = ["message", "callback_query"]
MODERATOR_ALLOWED_UPDATES = ["message", "callback_query", "channel_post"]


def build_customer_registry() -> HandlerRegistry:
    """Обработчики бота заявителей."""
    registry = HandlerRegistry("customer")
    registry.register_command(StartHandler)
    registry.register_callback(PolicyHandler)
    registry.register_message(RegistrationHandler)
    return registry


def build_moderator_registry() -> HandlerRegistry:
    """Обработчики бота модераторов. Обработчика свободных сообщений нет."""
    registry = HandlerRegistry("moderator")
    registry.register_command(PendingHandler)
    registry.register_callback(ApprovalHandler)
    return registry


def bus_dispatch(bus: EventBus):
    """
    Dispatch для пула модераторов: обновление публикуется в топик по своему типу.

    Маршрутизатор модераторов и очередь документов подписаны на эти топики.
    """

    async def publish_update(update: Update) -> None:
        if update.channel_post is not None:
            await bus.publish(TOPIC_MOD_CHANNEL_POST, update)
        elif update.callback_query is not None:
            await bus.publish(TOPIC_MOD_CALLBACK_QUERY, update)
        elif update.message is not None:
            await bus.publish(TOPIC_MOD_MESSAGE, update)
        else:
            logger.warning(f"Обновление {update.update_id} модераторского бота без известного типа, пропускаем")

    return publish_update
