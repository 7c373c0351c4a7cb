from __future__ import annotations

import asyncio
import logging
import re

from ...prompts.phrases import phrase
from ..common import IncomingMessage

logger = logging.getLogger("sych_bot")


class CommandMixin:
    def _parse_command(self, text: str) -> str:
        head = re.split(r"[\s@]+", text.strip(), maxsplit=1)[0] if text.strip() else ""
        return head.lower()

    async def _handle_command(self, message: IncomingMessage, command: str) -> bool:
        """Returns True when ``command`` was one of the bot's slash commands and has been answered."""
        prefix = self.settings.command_prefix
        if not command.startswith(prefix):
            return False
        name = command[len(prefix) :]

        if name in {"help", "start"}:
            await self._say(message, phrase("help_text"))
            return True

        if name == "mute":
            now_muted = self.store.toggle_mute(message.chat_id, message.thread_id)
            logger.info("Topic %s/%s muted=%s", message.chat_id, message.thread_id or "general", now_muted)
            await self._say(message, phrase("mute_on" if now_muted else "mute_off"))
            return True

        if name == "reset":
            self.context.reset(message.chat_id)
            await self._say(message, phrase("reset_done"))
            return True

        if name == "restart" and self._is_admin(message.sender.id):
            await self._handle_restart(message)
            return True
        return False

    async def _handle_restart(self, message: IncomingMessage) -> None:
        command = self.settings.restart_command.strip()
        if not command:
            await self._say(message, phrase("restart_unavailable"))
            return
        await self._say(message, phrase("restart_started"))
        self.spawn(self._run_restart(command), "restart")

    async def _run_restart(self, command: str) -> None:
        try:
            process = await asyncio.create_subprocess_shell(
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await process.communicate()
        except Exception as exc:
            logger.error("Restart command failed to start: %s", exc)
            self.notify_operator(phrase("alert_restart_failure", error=exc))
            return
        if process.returncode:
            error = stderr.decode("utf-8", errors="replace").strip() or f"exit code {process.returncode}"
            logger.error("Restart command failed: %s", error)
            self.notify_operator(phrase("alert_restart_failure", error=error))
