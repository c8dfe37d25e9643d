"""
Реестр обработчиков одного пула ботов.

Регистрация явная и упорядоченная: фабрики перечисляются в dispatcher_setup,
затем build() создаёт обработчики и замораживает реестр.
"""
from dataclasses import dataclass, field
from typing import Callable, List, Optional, TypeVar

from loguru import logger

from kyc_bot.routing.handlers import CallbackHandler, CommandHandler, HandlerDeps, MessageHandler

H = TypeVar("H")
Factory = Callable[[HandlerDeps], H]


@dataclass(frozen=True)
class RegisteredHandlers:
    commands: dict
    callbacks: List[CallbackHandler] = field(default_factory=list)
    message: Optional[MessageHandler] = None


class HandlerRegistry:

    def __init__(self, name: str):
        self.name = name
        self._commands: List[Factory[CommandHandler]] = []
        self._callbacks: List[Factory[CallbackHandler]] = []
        self._message: Optional[Factory[MessageHandler]] = None
        self._frozen = False
        self.log = logger.bind(component=f"registry:{name}")

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _accepts(self, kind: str) -> bool:
        if self._frozen:
            self.log.warning(f"Реестр '{self.name}' уже заморожен, регистрация {kind} проигнорирована")
            return False
        return True

    def register_command(self, factory: Factory[CommandHandler]) -> None:
        if self._accepts("command"):
            self._commands.append(factory)

    def register_callback(self, factory: Factory[CallbackHandler]) -> None:
        if self._accepts("callback"):
            self._callbacks.append(factory)

    def register_message(self, factory: Factory[MessageHandler]) -> None:
        """Обработчик сообщений в пуле один: повторная регистрация заменяет прежний."""
        if not self._accepts("message"):
            return
        if self._message is not None:
            self.log.warning(f"Обработчик сообщений пула '{self.name}' заменён")
        self._message = factory

    def build(self, deps: HandlerDeps) -> RegisteredHandlers:
        """Создаёт обработчики из фабрик; после вызова реестр больше не меняется."""
        self._frozen = True

        commands = {}
        for factory in self._commands:
            handler = factory(deps)
            if handler.command in commands:
                raise ValueError(f"duplicate command handler for /{handler.command}")
            commands[handler.command] = handler
            self.log.info(f"Зарегистрирована команда /{handler.command}")

        callbacks = []
        for factory in self._callbacks:
            handler = factory(deps)
            callbacks.append(handler)
            self.log.info(f"Зарегистрирован callback с префиксом '{handler.prefix}'")

        message = self._message(deps) if self._message else None
        if message is not None:
            self.log.info(f"Обработчик сообщений: {type(message).__name__}")

        return RegisteredHandlers(commands=commands, callbacks=callbacks, message=message)
