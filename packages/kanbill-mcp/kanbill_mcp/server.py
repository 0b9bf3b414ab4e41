"""
Kanbill MCP Server

Kanban board for freelancers exposed as MCP tools, backed by SQLite,
PostgreSQL or Supabase.
"""

import asyncio
import logging
import sys
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from kanbill.errors import KanbillError
from kanbill.models.task import parse_date

# Initialize FastMCP server
mcp = FastMCP("kanbill")

logger = logging.getLogger(__name__)

# Global state
_controller = None
_session = None


def create_server() -> FastMCP:
    """Return the module-level server with every tool registered."""
    return mcp


def set_controller(controller) -> None:
    """Use ``controller`` instead of building one from configuration."""
    global _controller, _session
    _controller = controller
    _session = None


async def ensure_initialized():
    """Ensure the store is ready and the configured user's board is loaded."""
    global _controller, _session
    if _controller is not None:
        return _controller

    from kanbill.config import load_config
    from kanbill.db import init_adapter
    from kanbill.services import BoardController, MemoryNotifier, SessionManager, StaticAuthProvider, User, get_store
    from kanbill.services.tasks import DatabaseTaskStore

    config = load_config()
    store = get_store(config)
    if isinstance(store, DatabaseTaskStore):
        await init_adapter(config)

    controller = BoardController(
        store,
        config.board,
        notifier=MemoryNotifier(),
        billing=config.billing,
    )
    session = SessionManager(controller)
    identity = config.identity
    session.attach(StaticAuthProvider(User(id=config.user_id or "local", name=identity.name, email=identity.email)))
    await session.settle()

    _controller, _session = controller, session
    logger.info("Kanbill initialized")
    return controller


def _task_payload(controller, task) -> dict:
    data = task.to_dict()
    data["column_id"] = controller.board.column_of(task.id)
    data["is_ghost"] = task.is_ghost
    return data


async def _settle(controller) -> List[str]:
    """Wait for background writes and collect the notifications they raised."""
    await controller.flush()
    drain = getattr(controller.notifier, "drain", None)
    if drain is None:
        return []
    return [f"{n.level}: {n.message}" for n in drain()]


def _resolve(controller, task_id: str) -> str:
    """Follow a placeholder id to the server id once it is known."""
    if task_id in controller.board.tasks:
        return task_id
    return controller.sync.resolve(task_id)


# =============================================================================
# BOARD TOOLS
# =============================================================================

@mcp.tool()
async def board_show(column_id: Optional[str] = None) -> dict:
    """
    Show the board, column by column.

    Args:
        column_id: Only show this column (budget, todo, in-progress, done, billing)

    Returns:
        Columns with their tasks in display order
    """
    controller = await ensure_initialized()
    board = controller.board

    columns = board.ordered_columns()
    if column_id is not None:
        columns = [c for c in columns if c.id == column_id]
        if not columns:
            return {"error": f"Column not found: {column_id}"}

    return {
        "columns": [
            {
                "id": col.id,
                "title": col.title,
                "tasks": [_task_payload(controller, t) for t in board.tasks_in(col.id)],
            }
            for col in columns
        ],
        "count": sum(len(col.task_ids) for col in columns),
    }


@mcp.tool()
async def board_stats() -> dict:
    """
    Productivity and billing statistics for the board.

    Returns:
        Totals per column, completion rate, time per client, weekly rank,
        billed/paid/outstanding amounts
    """
    controller = await ensure_initialized()
    from kanbill.services.stats import compute_stats

    stats = compute_stats(
        controller.board,
        hourly_rate=controller.billing.hourly_rate,
        done_column=controller.config.done_column,
    )
    return stats.to_dict()


# =============================================================================
# TASK TOOLS
# =============================================================================

@mcp.tool()
async def task_create(
    title: str,
    column_id: Optional[str] = None,
    description: Optional[str] = None,
    priority: str = "medium",
    tags: Optional[List[str]] = None,
    due_date: Optional[str] = None,
    recurrence: str = "none",
    recurrence_days: Optional[List[int]] = None,
    client_name: Optional[str] = None,
    client_phone: Optional[str] = None,
    billing_value: Optional[float] = None,
    billing_period: Optional[str] = None,
) -> dict:
    """
    Create a new task.

    Args:
        title: Task title (unique on the board, case-insensitive)
        column_id: Column to create it in (defaults to the intake column)
        description: Task description
        priority: Priority (low, medium, high, critical)
        tags: List of tags
        due_date: Due date (YYYY-MM-DD)
        recurrence: Recurrence (none, daily, weekly, monthly)
        recurrence_days: Weekdays for weekly recurrence (0=Sunday ... 6=Saturday)
        client_name: Client contact name
        client_phone: Client phone
        billing_value: Amount to bill
        billing_period: Billing period (unique, monthly, quarterly, semiannual, annual)

    Returns:
        Created task details
    """
    controller = await ensure_initialized()

    try:
        task = controller.create_task(
            title,
            column_id=column_id,
            description=description,
            priority=priority,
            tags=tags or (),
            due_date=parse_date(due_date),
            recurrence=recurrence,
            recurrence_days=recurrence_days or (),
            client_name=client_name,
            client_phone=client_phone,
            billing_value=billing_value,
            billing_period=billing_period,
        )
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    task = controller.board.tasks.get(_resolve(controller, task.id), task)
    return {**_task_payload(controller, task), "notifications": notifications}


@mcp.tool()
async def task_update(
    task_id: str,
    title: Optional[str] = None,
    description: Optional[str] = None,
    priority: Optional[str] = None,
    tags: Optional[List[str]] = None,
    due_date: Optional[str] = None,
    recurrence: Optional[str] = None,
    recurrence_days: Optional[List[int]] = None,
    client_name: Optional[str] = None,
    client_phone: Optional[str] = None,
    notify_client: Optional[bool] = None,
    billing_value: Optional[float] = None,
    billing_period: Optional[str] = None,
) -> dict:
    """
    Update an existing task.

    Args:
        task_id: Task ID
        title: New title
        description: New description
        priority: New priority
        tags: New tags
        due_date: New due date (YYYY-MM-DD)
        recurrence: New recurrence
        recurrence_days: New weekly recurrence days
        client_name: New client name
        client_phone: New client phone
        notify_client: Message the client when the task completes
        billing_value: New billing amount
        billing_period: New billing period

    Returns:
        Updated task details
    """
    controller = await ensure_initialized()

    changes = {
        "title": title,
        "description": description,
        "priority": priority,
        "tags": tuple(tags) if tags is not None else None,
        "recurrence": recurrence,
        "recurrence_days": tuple(recurrence_days) if recurrence_days is not None else None,
        "client_name": client_name,
        "client_phone": client_phone,
        "notify_client": notify_client,
        "billing_value": billing_value,
        "billing_period": billing_period,
    }
    changes = {k: v for k, v in changes.items() if v is not None}

    try:
        if due_date is not None:
            changes["due_date"] = parse_date(due_date)
        task = controller.update_task(_resolve(controller, task_id), **changes)
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    return {**_task_payload(controller, task), "notifications": notifications}


@mcp.tool()
async def task_move(task_id: str, column_id: str, before_task_id: Optional[str] = None) -> dict:
    """
    Move a task to a column.

    Moving into Done stamps completion, stops the timer and schedules the
    next occurrence of recurring tasks. Moving out of Done clears the stamp.

    Args:
        task_id: Task ID
        column_id: Target column
        before_task_id: Insert before this task (appends when absent)

    Returns:
        Move result
    """
    controller = await ensure_initialized()
    task_id = _resolve(controller, task_id)

    if task_id not in controller.board.tasks:
        return {"error": f"Task not found: {task_id}"}
    if column_id not in controller.board.columns:
        return {"error": f"Column not found: {column_id}"}

    result = controller.move(task_id, column_id, before_task_id)
    if result is None:
        return {
            "moved": False,
            "task": _task_payload(controller, controller.board.tasks[task_id]),
        }

    notifications = await _settle(controller)
    return {
        "moved": True,
        "from": result.source_column_id,
        "to": result.target_column_id,
        "completed": result.completed,
        "reopened": result.reopened,
        "task": _task_payload(controller, controller.board.tasks[task_id]),
        "notifications": notifications,
    }


@mcp.tool()
async def task_delete(task_id: str) -> dict:
    """
    Delete a task.

    Args:
        task_id: Task ID

    Returns:
        Deletion status
    """
    controller = await ensure_initialized()

    try:
        controller.delete_task(_resolve(controller, task_id))
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    return {"deleted": True, "task_id": task_id, "notifications": notifications}


@mcp.tool()
async def timer_toggle(task_id: str) -> dict:
    """
    Start or stop the timer of a task.

    Args:
        task_id: Task ID

    Returns:
        Task with its timer state and tracked time
    """
    controller = await ensure_initialized()

    try:
        task = controller.toggle_timer(_resolve(controller, task_id))
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    return {**_task_payload(controller, task), "notifications": notifications}


# =============================================================================
# BUDGET AND BILLING TOOLS
# =============================================================================

@mcp.tool()
async def budget_approve(task_id: str) -> dict:
    """
    Approve a budget and move it to the front of the work queue.

    Args:
        task_id: Task ID (must be in the budget column)

    Returns:
        Approved task
    """
    controller = await ensure_initialized()

    try:
        result = controller.approve(_resolve(controller, task_id))
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    return {**_task_payload(controller, result.task), "notifications": notifications}


@mcp.tool()
async def budget_reject(task_id: str) -> dict:
    """
    Reject a budget. The task stays in the budget column.

    Args:
        task_id: Task ID (must be in the budget column)

    Returns:
        Rejected task
    """
    controller = await ensure_initialized()

    try:
        task = controller.reject(_resolve(controller, task_id))
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    return {**_task_payload(controller, task), "notifications": notifications}


@mcp.tool()
async def task_mark_paid(task_id: str, paid: bool = True) -> dict:
    """
    Register (or undo) a client payment.

    Args:
        task_id: Task ID
        paid: False to mark the task unpaid again

    Returns:
        Task with payment status
    """
    controller = await ensure_initialized()

    try:
        task = controller.mark_paid(_resolve(controller, task_id), paid=paid)
    except KanbillError as e:
        return {"error": str(e)}

    notifications = await _settle(controller)
    return {**_task_payload(controller, task), "notifications": notifications}


# =============================================================================
# UTILITY TOOLS
# =============================================================================

@mcp.tool()
async def kanbill_health() -> dict:
    """
    Check store connectivity and health.

    Returns:
        Health status including store type and board size
    """
    controller = await ensure_initialized()
    from kanbill.services.tasks import DatabaseTaskStore

    store = controller.store
    connected = True
    if isinstance(store, DatabaseTaskStore):
        try:
            connected = await store.adapter.fetchval("SELECT 1") == 1
        except Exception as e:
            connected = False
            logger.error(f"Health check failed: {e}")

    return {
        "status": "healthy" if connected else "unhealthy",
        "store": type(store).__name__,
        "user_id": controller.user_id,
        "task_count": len(controller.board.tasks),
        "pending_sync": controller.sync.pending,
        "sync_failures": len(controller.sync.failures),
    }


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """Main entry point for kanbill-mcp command."""
    import argparse

    parser = argparse.ArgumentParser(description="Kanbill MCP Server")
    parser.add_argument("command", nargs="?", default="serve", help="Command to run (serve, init)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    # stdout carries the MCP protocol
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "init":
        async def do_init():
            from kanbill.config import CONFIG_FILE, ensure_config_dir, load_config, save_config

            ensure_config_dir()
            if not CONFIG_FILE.exists():
                save_config(load_config())
            await ensure_initialized()
            await _session.end()
            print(f"Kanbill ready ({CONFIG_FILE})")

        asyncio.run(do_init())
    else:
        # Start MCP server
        mcp.run()


if __name__ == "__main__":
    main()
