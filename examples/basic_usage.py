"""examples/basic_usage.py - errorlogger integration demo.

Demonstrates three usage levels:
    Scenario A - direct calls: log(), context blocks, tags, timers
    Scenario B - exceptions: log_exception() with the enhanced trace
    Scenario C - stdlib bridge: existing logging calls forwarded unchanged

Remote logging is disabled so the demo runs offline; records go to
./logs/application.log and to the ``errorlogger.platform`` logger.

Run:
    python examples/basic_usage.py
    cat logs/application.log
"""

import logging

from errorlogger import ErrorLogger, ErrorLoggerHandler, LoggerConfig

# ---------------------------------------------------------------------------
# Setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

config = LoggerConfig.from_env(
    project_hash="demo-project",
    use_remote_logging=False,
    min_log_level="debug",
    default_tags=["svc:payments"],
)
error_logger = ErrorLogger(config)


# ===========================================================================
# Scenario A: direct calls
# ===========================================================================


def get_balance(user_id: int) -> int:
    """Simulate a DB balance query."""
    error_logger.debug("Querying balance", {"user_id": user_id})
    return 3_000


def pay(user_id: int, amount: int) -> None:
    """Simulate a payment flow."""
    with error_logger.context({"user_id": user_id, "flow": "pay"}):
        error_logger.start_timer("pay")
        balance = get_balance(user_id)
        if balance < amount:
            error_logger.error(
                "Insufficient balance",
                {"balance": balance, "amount": amount, "card_number": "4111 1111 1111 1111", "tags": ["declined"]},
            )
        error_logger.stop_timer("pay", message="Payment flow finished")


# ===========================================================================
# Scenario B: exceptions
# ===========================================================================


def refund(order_id: int) -> None:
    raise LookupError(f"order {order_id} not found")


# ===========================================================================
# Scenario C: stdlib bridge
# ===========================================================================

legacy = logging.getLogger("legacy_billing")
legacy.addHandler(ErrorLoggerHandler(error_logger))


# ---------------------------------------------------------------------------
# Run
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    print("=== Scenario A: direct calls ===")
    pay(user_id=42, amount=5_000)

    print("\n=== Scenario B: exceptions ===")
    try:
        refund(order_id=7)
    except LookupError as exc:
        error_logger.log_exception(exc)

    print("\n=== Scenario C: stdlib bridge ===")
    legacy.warning("Retrying charge", extra={"attempt": 2})

    error_logger.close()
    print(f"\nRecords written to {config.log_file_path}")
