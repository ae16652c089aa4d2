"""
Background jobs for the Metavault backend.
"""
import traceback

from metavault.cloud.oauth_state import OAuthStateStore
from metavault.core.exceptions import StorageFailure
from metavault.monitoring.logger import log
from metavault.monitoring.slack_alerts import send_slack_alert


async def purge_expired_oauth_states(store: OAuthStateStore = None) -> int:
    store = store or OAuthStateStore()
    try:
        purged = await store.purge_expired()
    except StorageFailure as exc:
        tb = traceback.format_exc()
        log("ERROR", f"OAuth state purge failed: {exc}", module="jobs")
        await send_slack_alert(f"OAuth state purge failed: {exc}", context={"traceback": tb}, severity="ERROR", module="jobs")
        return 0
    if purged:
        log("INFO", f"Purged {purged} expired authorization state(s)", module="jobs")
    return purged
