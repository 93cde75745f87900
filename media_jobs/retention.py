import logging

logger = logging.getLogger(__name__)


def run_retention(workspaces, store, max_age: int | None = None) -> dict:
    """
    Run both sweeps. They are independent: a workspace can be purged while
    its record still says "completed", after which retrieval is a NotFound.
    """
    cleaned_workspaces = workspaces.sweep(max_age)
    cleaned_records = store.sweep_expired()
    logger.info("Retention: %d workspaces, %d records removed", cleaned_workspaces, cleaned_records)
    return {"cleaned_workspaces": cleaned_workspaces, "cleaned_records": cleaned_records}
