"""Message templates for run notifications (Telegram legacy Markdown)."""

from datetime import datetime
from typing import List, Optional
from zoneinfo import ZoneInfo

from discount_sync.config import settings
from discount_sync.notifications.base import EventKind, NotificationEvent
from discount_sync.schemas.sync import ComparisonResult, StoreStatus, SyncExecutionResult

MAX_MESSAGE_LENGTH = 4000  # Telegram caps messages at 4096 characters
MAX_STORE_LINES = 10
MAX_COMPARISON_STORES = 5

_MARKDOWN_SPECIAL = ("_", "*", "`", "[")


def escape_markdown(text: str) -> str:
    for char in _MARKDOWN_SPECIAL:
        text = text.replace(char, f"\\{char}")
    return text


def truncate(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    if len(text) <= limit:
        return text
    suffix = "\n... (truncated)"
    return text[: limit - len(suffix)] + suffix


def _now() -> str:
    return datetime.now(ZoneInfo(settings.sync_timezone)).strftime("%d/%m/%Y %H:%M:%S")


def _config_suffix(config_name: Optional[str]) -> str:
    return f" ({escape_markdown(config_name)})" if config_name else ""


def sync_started(store_count: int, execution_id: Optional[str] = None, config_name: Optional[str] = None) -> str:
    stores = "1 store" if store_count == 1 else f"{store_count} stores"
    message = f"""🚀 *Sync started*{_config_suffix(config_name)}

📊 *Details:*
• Stores: {stores}
• Status: Running
• Started: {_now()}"""
    if execution_id:
        message += f"\n• Execution: `{execution_id}`"
    return message


def sync_completed(result: SyncExecutionResult, config_name: Optional[str] = None) -> str:
    summary = result.summary
    duration = round(summary.execution_time / 1000)
    skipped = summary.total_stores - summary.successful_stores - summary.failed_stores

    message = f"""✅ *Sync completed*{_config_suffix(config_name)}

📊 *Summary:*
• Total stores: {summary.total_stores}
• Stores synced: {summary.successful_stores}
• Products synced: {summary.total_products}
• Duration: {duration}s"""
    if skipped:
        message += f"\n• Stores skipped: {skipped}"
    if summary.failed_stores:
        message += f"\n• ⚠️ Stores with errors: {summary.failed_stores}"

    icons = {StoreStatus.SUCCESS: "✅", StoreStatus.FAILED: "❌", StoreStatus.SKIPPED: "⏭️"}
    lines = []
    for store in result.stores_processed[:MAX_STORE_LINES]:
        products = f" ({store.products_synced} products)" if store.products_synced > 0 else ""
        lines.append(f"  {icons[store.status]} {escape_markdown(store.store_name)}{products}")
    if lines:
        message += "\n\n🏪 *Per store:*\n" + "\n".join(lines)
    if len(result.stores_processed) > MAX_STORE_LINES:
        message += f"\n... and {len(result.stores_processed) - MAX_STORE_LINES} more store(s)"
    return message


def sync_failed(error: str, config_name: Optional[str] = None, execution_id: Optional[str] = None) -> str:
    message = f"""❌ *Sync failed*{_config_suffix(config_name)}

🚨 *Error:*
{escape_markdown(error)}

⏰ *Time:* {_now()}"""
    if execution_id:
        message += f"\n🔖 *Execution:* `{execution_id}`"
    return message + "\n\n🔧 Check the integration settings and try again."


def comparison_summary(comparisons: List[ComparisonResult]) -> str:
    with_differences = [c for c in comparisons if c.differences_found > 0]
    failed = [c for c in comparisons if c.error]

    message = f"""🔍 *RP ↔ CresceVendas comparison*

📊 *Summary:*
• Stores analysed: {len(comparisons)}
• Stores with differences: {len(with_differences)}
• Total differences: {sum(c.differences_found for c in comparisons)}
• Missing in CresceVendas: {sum(c.missing_products for c in comparisons)}
• Price differences: {sum(c.price_differences for c in comparisons)}"""
    if failed:
        message += f"\n• ⚠️ Stores not compared: {len(failed)}"

    if with_differences:
        message += "\n\n⚠️ *Differences found:*"
        for comparison in with_differences[:MAX_COMPARISON_STORES]:
            message += f"\n\n🏪 *{escape_markdown(comparison.store_name)}:*"
            if comparison.missing_products:
                message += f"\n  • 📤 Missing: {comparison.missing_products}"
            if comparison.price_differences:
                message += f"\n  • 💰 Price differences: {comparison.price_differences}"
        if len(with_differences) > MAX_COMPARISON_STORES:
            message += f"\n\n... and {len(with_differences) - MAX_COMPARISON_STORES} more store(s) with differences"
    elif not failed:
        message += "\n\n✅ All products are in sync!"
    return message


def render(event: NotificationEvent) -> str:
    if event.kind == EventKind.SYNC_STARTED:
        text = sync_started(event.store_count, event.execution_id, event.config_name)
    elif event.kind == EventKind.SYNC_COMPLETED:
        text = sync_completed(event.result, event.config_name)
    elif event.kind == EventKind.SYNC_FAILED:
        text = sync_failed(event.error or "Unknown error", event.config_name, event.execution_id)
    else:
        text = comparison_summary(event.comparisons)
    return truncate(text)
