"""Reply texts and renderers for the chat bot."""

from notes_collector.bot.schemas import Button, Reply
from notes_collector.bot.states import IDENTIFIER_RULES
from notes_collector.ingestion.schemas import Note, Platform
from notes_collector.storage.base import NoteStats
from notes_collector.subscriptions.schemas import Subscription, UserSettings

PLATFORM_ICONS = {
    Platform.TWITTER: "🐦",
    Platform.REDDIT: "👾",
    Platform.YOUTUBE: "📺",
    Platform.VK: "👥",
    Platform.TELEGRAM: "📱",
    Platform.WEB: "🌐",
    Platform.RSS: "📡",
}

PLATFORM_LABELS = {
    Platform.TWITTER: "Twitter",
    Platform.REDDIT: "Reddit",
    Platform.YOUTUBE: "YouTube",
    Platform.VK: "VK",
    Platform.TELEGRAM: "Telegram",
    Platform.WEB: "Сайт",
    Platform.RSS: "RSS",
}

WELCOME = """🎯 *Notes Collector Bot*

*Возможности:*
• 📱 Сбор заметок из Telegram, Twitter, Reddit, YouTube, VK, RSS и сайтов
• 🔍 Автоматическая категоризация и тегирование
• 🔎 Поиск по всем заметкам
• 📊 Статистика

*Основные команды:*
/add - Добавить источник
/list - Показать заметки
/search - Поиск по заметкам
/settings - Настройки
/help - Помощь"""

HELP = """Команды:
/add [платформа] - добавить источник
/sources - ваши источники
/remove <платформа> <источник> - отключить источник
/list - заметки
/search [слово] - поиск по заметкам
/note [текст] - сохранить заметку вручную
/fetch - обновить источники сейчас
/stats - статистика
/settings - настройки
/cancel - отменить текущий ввод

Примеры источников:
• Twitter: @username
• Reddit: r/subreddit
• YouTube: URL канала
• VK: URL группы или пользователя"""

UNKNOWN_COMMAND = "Неизвестная команда. Используйте /help для списка команд."
GENERIC_FAILURE = "Что-то пошло не так. Попробуйте позже."
CHOOSE_PLATFORM = "Выберите платформу для добавления:"
NO_NOTES = "У вас пока нет заметок. Добавьте источники с помощью команды /add"
NO_SOURCES = "У вас пока нет источников. Добавьте их командой /add"
ASK_KEYWORD = "Введите ключевое слово для поиска:"
EMPTY_KEYWORD = "Ключевое слово не может быть пустым. Введите слово для поиска или /cancel:"
ASK_NOTE = "Отправьте текст заметки:"
EMPTY_NOTE = "Заметка не может быть пустой. Отправьте текст или /cancel:"
NOTE_SAVED = "✅ Заметка сохранена."
NOTE_EXISTS = "Такая заметка уже сохранена."
CANCELLED = "Ввод отменён."
NOTHING_TO_CANCEL = "Нечего отменять."
REMOVE_USAGE = "Использование: /remove <платформа> <источник>, например /remove twitter @alice"
SOURCE_REMOVED = "Источник отключён: {platform} {identifier}"
SOURCE_NOT_FOUND = "Активный источник не найден: {platform} {identifier}"
SETTINGS_UPDATED = "✅ Настройки обновлены."
SETTINGS_USAGE = """Изменить настройки:
/settings page <1-50>
/settings autocat on|off
/settings notify on|off
/settings tz <часовой пояс>
/settings lang <код языка>
/settings keywords слово1, слово2
/settings block <автор>
/settings unblock <автор>
/settings platform <платформа> on|off"""

IDENTIFIER_PROMPTS = {
    Platform.TWITTER: "Введите Twitter username (например, @elonmusk):",
    Platform.REDDIT: "Введите название subreddit (например, programming):",
    Platform.YOUTUBE: "Введите URL YouTube канала:",
    Platform.VK: "Введите URL VK группы или пользователя:",
    Platform.RSS: "Введите RSS feed URL:",
    Platform.WEB: "Введите URL страницы:",
    Platform.TELEGRAM: "Перешлите сообщение из канала или введите @username:",
}


def platform_menu() -> Reply:
    platforms = list(Platform)
    rows = [
        [
            Button(f"{PLATFORM_ICONS[p]} {PLATFORM_LABELS[p]}", f"add_{p.value}")
            for p in platforms[i:i + 2]
        ]
        for i in range(0, len(platforms), 2)
    ]
    return Reply(CHOOSE_PLATFORM, buttons=rows)


def identifier_prompt(platform: Platform) -> Reply:
    return Reply(IDENTIFIER_PROMPTS[platform])


def identifier_reprompt(platform: Platform) -> Reply:
    example = IDENTIFIER_RULES[platform].example
    return Reply(
        f"Не удалось распознать источник {PLATFORM_LABELS[platform]}. "
        f"Пример: {example}\nПопробуйте ещё раз или /cancel:"
    )


def platform_disabled(platform: Platform) -> Reply:
    return Reply(
        f"Платформа {PLATFORM_LABELS[platform]} отключена в настройках. "
        f"Включить: /settings platform {platform.value} on"
    )


def subscription_added(subscription: Subscription) -> Reply:
    icon = PLATFORM_ICONS[subscription.platform]
    return Reply(
        f"✅ Источник добавлен: {icon} {subscription.source_identifier}\n"
        f"Проверка каждые {subscription.fetch_interval_minutes} мин."
    )


def _preview(note: Note, length: int) -> str:
    content = note.content
    return content if len(content) <= length else content[:length] + "..."


def _render_note(note: Note, preview_length: int) -> list[str]:
    lines = [f"{PLATFORM_ICONS[note.platform]} {note.title or 'Без названия'}"]
    if note.created_at is not None:
        lines.append(f"📅 {note.created_at:%d.%m.%Y %H:%M}")
    if note.url:
        lines.append(f"🔗 {note.url}")
    if note.content:
        lines.append(f"📝 {_preview(note, preview_length)}")
    lines.append("")
    return lines


def notes_page(
    notes: list[Note],
    page: int,
    page_size: int,
    total: int,
    preview_length: int = 100,
) -> Reply:
    if not notes:
        return Reply(NO_NOTES)

    first = page * page_size + 1
    last = page * page_size + len(notes)
    lines = [f"📚 Ваши заметки ({first}-{last} из {total})", ""]
    for note in notes:
        lines.extend(_render_note(note, preview_length))

    nav: list[Button] = []
    if page > 0:
        nav.append(Button("⬅️ Назад", f"list_page_{page - 1}"))
    if (page + 1) * page_size < total:
        nav.append(Button("Вперед ➡️", f"list_page_{page + 1}"))

    return Reply("\n".join(lines).rstrip(), buttons=[nav] if nav else [])


def search_results(keyword: str, notes: list[Note], preview_length: int = 100) -> Reply:
    if not notes:
        return Reply(f"По запросу «{keyword}» ничего не найдено.")
    lines = [f"🔎 Найдено по запросу «{keyword}»: {len(notes)}", ""]
    for note in notes:
        lines.extend(_render_note(note, preview_length))
    return Reply("\n".join(lines).rstrip())


def sources_list(subscriptions: list[Subscription]) -> Reply:
    if not subscriptions:
        return Reply(NO_SOURCES)
    lines = ["📋 Ваши источники:", ""]
    for sub in subscriptions:
        status = "" if sub.is_active else " (отключён)"
        fetched = (
            f"{sub.last_fetched_at:%d.%m.%Y %H:%M}" if sub.last_fetched_at else "ещё не проверялся"
        )
        lines.append(
            f"{PLATFORM_ICONS[sub.platform]} {sub.source_identifier}{status} — "
            f"каждые {sub.fetch_interval_minutes} мин., {fetched}"
        )
    return Reply("\n".join(lines))


def stats_summary(stats: NoteStats, subscriptions: int) -> Reply:
    lines = [
        "📊 Статистика",
        "",
        f"Всего заметок: {stats.total}",
        f"Активных источников: {subscriptions}",
    ]
    if stats.by_platform:
        lines.append("")
        lines.append("По платформам:")
        for platform, count in sorted(stats.by_platform.items(), key=lambda kv: -kv[1]):
            icon = PLATFORM_ICONS.get(Platform(platform), "📄")
            lines.append(f"{icon} {platform}: {count}")
    if stats.by_category:
        lines.append("")
        lines.append("По категориям:")
        for category, count in sorted(stats.by_category.items(), key=lambda kv: -kv[1]):
            lines.append(f"• {category}: {count}")
    return Reply("\n".join(lines))


def settings_summary(settings: UserSettings) -> Reply:
    enabled = [p for p, on in settings.enabled_platforms.items() if on]
    lines = [
        "⚙️ Настройки",
        "",
        f"Часовой пояс: {settings.time_zone}",
        f"Заметок на странице: {settings.items_per_page}",
        f"Автокатегоризация: {'вкл' if settings.auto_categorize else 'выкл'}",
        f"Уведомления: {'вкл' if settings.send_notifications else 'выкл'}",
        f"Платформы: {', '.join(enabled) or '—'}",
        f"Ключевые слова: {', '.join(settings.keywords) or '—'}",
        f"Заблокированные авторы: {', '.join(settings.blocked_sources) or '—'}",
        f"Язык: {settings.language}",
        "",
        SETTINGS_USAGE,
    ]
    return Reply("\n".join(lines))


def fetch_summary(inserted: int, failed: int, sources: int) -> Reply:
    if sources == 0:
        return Reply(NO_SOURCES)
    text = f"🔄 Проверено источников: {sources}. Новых заметок: {inserted}."
    if failed:
        text += f" Ошибок: {failed}."
    return Reply(text)


def new_notes_notification(counts: dict[str, int]) -> Reply:
    """Summary of notes a scheduled fetch added, keyed by source identifier."""
    total = sum(counts.values())
    lines = [f"🔔 Новых заметок: {total}", ""]
    for source, count in sorted(counts.items(), key=lambda kv: -kv[1]):
        lines.append(f"• {source}: {count}")
    lines.append("")
    lines.append("Показать: /list")
    return Reply("\n".join(lines))
