from __future__ import annotations

import logging

import discord
from discord.ext import commands
from dotenv import load_dotenv

from .commands import register_commands
from .config import Config, load_config
from .db import Database
from .editor import SessionEditor
from .reporter import Reporter
from .tracker import WorkTimer


class WorkTimerBot(commands.Bot):
    def __init__(self, config: Config, db: Database) -> None:
        # Slash commands only need guild events; no message content or member lists.
        intents = discord.Intents.none()
        intents.guilds = True

        super().__init__(command_prefix="!", intents=intents)

        self.config = config
        self.db = db
        self.timer = WorkTimer(db=db, default_timezone=config.default_timezone.key)
        self.editor = SessionEditor(self.timer)
        self.reporter = Reporter(self.timer.projector)

        self.logger = logging.getLogger("work-timer-bot")

    async def setup_hook(self) -> None:
        register_commands(self)
        await self.tree.sync(guild=discord.Object(id=self.config.guild_id))

    async def on_ready(self) -> None:
        self.logger.info("Connected as %s (%s)", self.user, self.user.id if self.user else "unknown")

        if self.get_guild(self.config.guild_id) is None:
            self.logger.error("Configured guild %s not found", self.config.guild_id)
            await self.close()

    async def close(self) -> None:
        self.db.close()
        await super().close()


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def main() -> None:
    load_dotenv()

    config = load_config()
    configure_logging(config.log_level)

    db = Database(config.database_path)
    db.initialize()

    bot = WorkTimerBot(config=config, db=db)
    bot.run(config.discord_token, log_handler=None)


if __name__ == "__main__":
    main()
