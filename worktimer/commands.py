from collections.abc import Callable
from zoneinfo import ZoneInfo

import discord

from .editor import UNSET
from .errors import AuthenticationError, DataIntegrityError, DependencyError, WorkTimerError
from .intervals import utc_now
from .localdate import combine_local, local_date, local_end, month_days, parse_day, parse_month, start_of_week
from .models import TimerStatus


def _authenticated_user(bot, interaction: discord.Interaction) -> str:
    """Resolve the caller's user id; the configured guild is the only trusted scope."""
    if interaction.guild is None or interaction.guild.id != bot.config.guild_id:
        raise AuthenticationError("This command can only be used in the configured server.")
    if interaction.user is None:
        raise AuthenticationError("Could not identify the calling user.")
    return str(interaction.user.id)


async def _reply(interaction: discord.Interaction, content: str) -> None:
    await interaction.response.send_message(content, ephemeral=True)


async def _reply_error(bot, interaction: discord.Interaction, exc: WorkTimerError, tz: ZoneInfo | None = None) -> None:
    if isinstance(exc, (DependencyError, DataIntegrityError)):
        bot.logger.error("Command /%s failed", interaction.command.name if interaction.command else "?", exc_info=exc)
        message = f"Something went wrong: `{exc}`"
    else:
        message = str(exc)

    # Conflict and validation errors carry the current status so the user sees where things stand.
    status = getattr(exc, "status", None)
    if status is not None:
        message += "\n\n" + bot.reporter.build_status_content(status, tz or bot.config.default_timezone)
    await _reply(interaction, message)


async def _timer_action(
    bot,
    interaction: discord.Interaction,
    action: Callable[[str, ZoneInfo], TimerStatus],
) -> None:
    tz = None
    try:
        user_id = _authenticated_user(bot, interaction)
        tz = bot.timer.timezone_for(user_id)
        status = action(user_id, tz)
    except WorkTimerError as exc:
        await _reply_error(bot, interaction, exc, tz)
        return

    await _reply(interaction, bot.reporter.build_status_content(status, tz))


def register_commands(bot):
    """Register all slash commands on the bot. Called once during setup."""
    guild_scope = discord.Object(id=bot.config.guild_id)

    @bot.tree.command(name="start", description="Start a new work session", guild=guild_scope)
    async def start(interaction: discord.Interaction):
        await _timer_action(bot, interaction, bot.timer.start)

    @bot.tree.command(name="pause", description="Pause the running timer", guild=guild_scope)
    async def pause(interaction: discord.Interaction):
        await _timer_action(bot, interaction, bot.timer.pause)

    @bot.tree.command(name="resume", description="Resume the paused session", guild=guild_scope)
    async def resume(interaction: discord.Interaction):
        await _timer_action(bot, interaction, bot.timer.resume)

    @bot.tree.command(name="stop", description="Stop the current session", guild=guild_scope)
    async def stop(interaction: discord.Interaction):
        await _timer_action(bot, interaction, bot.timer.stop)

    @bot.tree.command(name="status", description="Show the timer and today's total", guild=guild_scope)
    async def status(interaction: discord.Interaction):
        await _timer_action(bot, interaction, bot.timer.get_status)

    @bot.tree.command(name="day", description="Show the sessions of a day (YYYY-MM-DD, default today)", guild=guild_scope)
    async def day(interaction: discord.Interaction, date: str | None = None):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            day_value = parse_day(date) if date else parse_day(local_date(utc_now(), tz))
            content = bot.reporter.day_report(user_id, day_value, tz)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, content)

    @bot.tree.command(name="week", description="Show seven days from a start date (default this Monday)", guild=guild_scope)
    async def week(interaction: discord.Interaction, start: str | None = None):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            start_day = parse_day(start) if start else start_of_week(parse_day(local_date(utc_now(), tz)))
            content = bot.reporter.week_report(user_id, start_day)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, content)

    @bot.tree.command(name="month", description="Show a calendar month (YYYY-MM, default this month)", guild=guild_scope)
    async def month(interaction: discord.Interaction, month: str | None = None):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            year, month_number = parse_month(month or local_date(utc_now(), tz)[:7])
            content = bot.reporter.month_report(user_id, year, month_number)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, content)

    @bot.tree.command(name="timezone", description="Show or set your IANA timezone", guild=guild_scope)
    async def timezone(interaction: discord.Interaction, name: str | None = None):
        try:
            user_id = _authenticated_user(bot, interaction)
            if name:
                profile = bot.timer.set_timezone(user_id, name)
                content = f"Timezone set to `{profile.timezone}`."
            else:
                content = f"Your timezone is `{bot.timer.timezone_for(user_id).key}`."
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc)
            return
        await _reply(interaction, content)

    @bot.tree.command(name="log", description="Add a session by hand (times are HH:MM local)", guild=guild_scope)
    async def log(
        interaction: discord.Interaction,
        date: str,
        start: str,
        end: str | None = None,
        note: str | None = None,
        project: str | None = None,
    ):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            day_value = parse_day(date)
            start_at = combine_local(day_value, start, tz)
            end_at = local_end(day_value, end, tz, start_at) if end else None
            session = bot.editor.create_manual_session(
                user_id, day_value.isoformat(), start_at, end_at, note=note, project_id=project
            )
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, f"Session `{session.id}` added for {session.local_date}.")

    @bot.tree.command(name="edit", description="Correct a session's note or outer times (HH:MM local)", guild=guild_scope)
    async def edit(
        interaction: discord.Interaction,
        session_id: str,
        note: str | None = None,
        start: str | None = None,
        end: str | None = None,
        project: str | None = None,
    ):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            detail = bot.editor.get_session(session_id, user_id)
            day_value = parse_day(detail.session.local_date)
            start_at = combine_local(day_value, start, tz) if start else None
            first_start = detail.segments[0].start_at if detail.segments else None
            end_at = local_end(day_value, end, tz, start_at or first_start) if end else None
            bot.editor.update_session(
                session_id,
                user_id,
                note=note if note is not None else UNSET,
                project_id=project if project is not None else UNSET,
                start_at=start_at,
                end_at=end_at,
            )
            content = bot.reporter.build_session_line(bot.editor.get_session(session_id, user_id), tz)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, f"Session updated:\n{content}")

    @bot.tree.command(name="session", description="Show one session with its segments", guild=guild_scope)
    async def session(interaction: discord.Interaction, session_id: str):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            detail = bot.editor.get_session(session_id, user_id)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, f"**{detail.session.local_date}**\n{bot.reporter.build_session_line(detail, tz)}")

    @bot.tree.command(name="delete", description="Delete a session and all of its segments", guild=guild_scope)
    async def delete(interaction: discord.Interaction, session_id: str):
        try:
            user_id = _authenticated_user(bot, interaction)
            bot.editor.delete_session(session_id, user_id)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc)
            return
        await _reply(interaction, f"Session `{session_id}` deleted.")

    @bot.tree.command(name="calendar", description="Show tracked days in a range (YYYY-MM-DD, default this month)", guild=guild_scope)
    async def calendar(interaction: discord.Interaction, start: str | None = None, end: str | None = None):
        tz = None
        try:
            user_id = _authenticated_user(bot, interaction)
            tz = bot.timer.timezone_for(user_id)
            from_day = parse_day(start) if start else parse_day(local_date(utc_now(), tz)).replace(day=1)
            to_day = parse_day(end) if end else month_days(from_day.year, from_day.month)[-1]
            content = bot.reporter.calendar_report(user_id, from_day, to_day)
        except WorkTimerError as exc:
            await _reply_error(bot, interaction, exc, tz)
            return
        await _reply(interaction, content)
