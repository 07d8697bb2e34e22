from html import escape
from typing import Optional

from twitch_announcer.twitch.models import LiveSnapshot

SIGNATURE = "Разработано с ❤️"


def format_duration(minutes: int) -> str:
    minutes = max(0, int(minutes))
    hours, mins = divmod(minutes, 60)
    if hours > 0:
        return f"{hours} ч {mins} мин"
    return f"{mins} мин"


def format_viewers(count: Optional[int]) -> str:
    return f"{count or 0:,}".replace(",", " ")


def render_announcement(snapshot: LiveSnapshot) -> str:
    lines = ["🔴 <b>СТРИМ НАЧАЛСЯ!</b>", "", f"<b>{escape(snapshot.title or '')}</b>", ""]
    if snapshot.category:
        lines.append(f"🎮 Игра: {escape(snapshot.category)}")
    if snapshot.viewer_count:
        lines.append(f"👁‍🗨 Зрителей: {format_viewers(snapshot.viewer_count)}")
    lines += ["", "Заваривайте чай и залетайте! 👇", "", SIGNATURE]
    return "\n".join(lines)


def render_live_update(snapshot: LiveSnapshot, minutes: int) -> str:
    return "\n".join([
        "🔴 <b>СТРИМ ИДЕТ</b>",
        "",
        f"<b>{escape(snapshot.title or '')}</b>",
        "",
        f"⏱ Длительность: {format_duration(minutes)}",
        f"👁‍🗨 Онлайн: {format_viewers(snapshot.viewer_count)} зрителей",
        "",
        f"🎮 Игра: {escape(snapshot.category or 'Не указана')}",
        "",
        "Заходите на стрим! 👇",
    ])


def render_stream_end() -> str:
    return "\n".join([
        "📴 <b>СТРИМ ЗАКОНЧИЛСЯ</b>",
        "",
        "Спасибо всем, кто был! Записи появятся на YouTube.",
        "",
        SIGNATURE,
    ])


def render_test_message() -> str:
    return "🔔 <b>Тестовое сообщение</b>\n\nБот работает корректно! ✓"


def watch_keyboard(url: str) -> dict:
    return {"inline_keyboard": [[{"text": "📺 Смотреть на Twitch", "url": url}]]}
