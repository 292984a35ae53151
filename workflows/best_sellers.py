"""
Prefect Workflow Orchestration - Best-Seller Recompute

Orchestrated alternative to the in-process scheduler:
- Daily full recompute of best-seller ranks and flags
- Retries when the order ledger is unreachable
- Alerting on partial failures and aborted runs
"""

from typing import Optional

from prefect import flow, task, get_run_logger

from bestsellers.components import build_components
from bestsellers.config import get_settings
from bestsellers.database.connection import close_database, get_session_factory, init_database
from bestsellers.ranking.exceptions import DataSourceError
from bestsellers.serving.cache import InMemoryResultCache

settings = get_settings()


def retry_on_data_source_error(task, task_run, state) -> bool:
    """Retry only when the database was unreachable; timeouts and bugs fail fast"""
    try:
        state.result()
    except DataSourceError:
        return True
    except Exception:
        return False
    return False


# =============================================================================
# TASKS
# =============================================================================

@task(
    name="recompute_best_sellers",
    description="Reset and reapply best-seller ranks for the whole catalog",
    retries=2,
    retry_delay_seconds=60,
    retry_condition_fn=retry_on_data_source_error,
)
async def recompute_best_sellers(timeout: Optional[float] = None) -> dict:
    """Run one recompute against the configured database"""
    logger = get_run_logger()

    await init_database()
    try:
        # the recompute never reads or writes the result cache
        components = build_components(settings, get_session_factory(), cache=InMemoryResultCache())
        result = await components.recompute.run(timeout=timeout)
    finally:
        await close_database()

    logger.info(
        f"Recompute {result.status}: {result.products_updated} updated, "
        f"{len(result.failures)} failed, {result.skipped} skipped"
    )
    return result.summary()


@task(
    name="collect_best_seller_stats",
    description="Count flagged products, vendors and categories",
    retries=1,
    retry_delay_seconds=30,
)
async def collect_best_seller_stats() -> dict:
    """Flagged product counts after the recompute"""
    await init_database()
    try:
        components = build_components(settings, get_session_factory(), cache=InMemoryResultCache())
        stats = await components.service.flagged_stats()
    finally:
        await close_database()

    return stats.model_dump()


@task(
    name="send_alert",
    description="Send alert notification",
)
async def send_alert(
    alert_type: str,
    message: str,
    severity: str = "info",
) -> None:
    """Send alert notification"""
    logger = get_run_logger()
    logger.warning(f"[{severity.upper()}] {alert_type}: {message}")


# =============================================================================
# FLOWS
# =============================================================================

@flow(
    name="daily_best_seller_recompute",
    description="Daily recompute of persisted best-seller ranks and flags",
)
async def daily_best_seller_recompute(timeout: Optional[float] = None) -> dict:
    """
    Daily best-seller recompute.

    Steps:
    1. Recompute ranks and flags
    2. Collect flagged product stats
    3. Alert on partial runs or failures
    """
    logger = get_run_logger()
    timeout = timeout if timeout is not None else settings.ranking.recompute_timeout_seconds

    logger.info("Starting daily best-seller recompute")

    try:
        summary = await recompute_best_sellers(timeout=timeout)
    except Exception as e:
        logger.error(f"Best-seller recompute failed: {e}")
        await send_alert(
            alert_type="Best-Seller Recompute Failed",
            message=f"Recompute aborted, previous flags kept: {e}",
            severity="critical",
        )
        raise

    if summary["status"] == "partial":
        await send_alert(
            alert_type="Best-Seller Recompute Partial",
            message=(
                f"{summary['failed']} write(s) failed, {summary['skipped']} skipped, "
                f"{summary['products_updated']} product(s) flagged"
            ),
            severity="warning",
        )

    summary["stats"] = await collect_best_seller_stats()
    return summary


# =============================================================================
# DEPLOYMENT CONFIGURATION
# =============================================================================

if __name__ == "__main__":
    daily_best_seller_recompute.serve(
        name="daily-best-seller-recompute",
        cron=f"0 {settings.ranking.recompute_hour_utc} * * *",
    )
