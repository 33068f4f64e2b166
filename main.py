"""HTTP service host that shuts down gracefully on SIGINT or SIGTERM."""

import signal
import sys
from typing import Optional

from httphost.bootstrap.config import build_server_config, parse_cli_args
from httphost.bootstrap.logging_setup import configure_logging
from httphost.domain.context import CancelFunc, background, with_cancel
from httphost.domain.correlation_id import ContextLoggerAdapter
from httphost.handlers.system_handlers import build_router
from httphost.lifecycle.manager import LifecycleManager


def install_signal_handlers(cancel: CancelFunc, logger: ContextLoggerAdapter) -> None:
    """Cancel the root context when the process is asked to stop."""

    def shutdown_handler(signum: int, _frame) -> None:
        logger.info(
            "Received shutdown signal",
            extra={"event": "signal_received", "signal": signal.Signals(signum).name},
        )
        cancel()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)


def main(argv: Optional[list[str]] = None) -> int:
    """Run the service until a shutdown signal and return the exit status."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    logger = configure_logging(
        args.log_level, args.log_destination, use_json=args.log_format == "json"
    )
    try:
        config = build_server_config(args)
    except ValueError as error:
        logger.critical(
            "Invalid server configuration",
            extra={"event": "config_invalid", "error": str(error)},
        )
        return 2

    ctx, cancel = with_cancel(background())
    install_signal_handlers(cancel, logger)

    manager = LifecycleManager(logger.child("lifecycle"))
    outcome = manager.run(ctx, build_router(), config)
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
