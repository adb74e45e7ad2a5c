"""CLI command: upgrade."""

from __future__ import annotations

import argparse
import logging

from upgrader.adapters.package_index import PackageIndexClient
from upgrader.analyzers import default_analyzers
from upgrader.analyzers.package_map import PackageMapError
from upgrader.cancellation import CancellationToken, OperationCancelled
from upgrader.cli._helpers import EXIT_CANCELLED, EXIT_OK, EXIT_STARTUP_ERROR, cancel_on_sigterm
from upgrader.config import ConfigError, UpgradeConfig
from upgrader.console import ConsolePresenter, ConsoleUserInput, NonInteractiveUserInput
from upgrader.driver import OrchestrationDriver, RunOutcome
from upgrader.graph import StepGraphError
from upgrader.observability import setup_logging
from upgrader.ports import UserInputPort
from upgrader.progress import ProgressFormatError, ProgressStore
from upgrader.steps import default_registry
from upgrader.workspace import WorkspaceError, load_workspace

log = logging.getLogger("upgrader.cli")


def cmd_upgrade(args: argparse.Namespace) -> int:
    try:
        config = UpgradeConfig.from_args(args)
    except ConfigError as e:
        setup_logging()
        log.error("%s", e)
        return EXIT_STARTUP_ERROR
    log_settings = setup_logging(config.log_level, config.log_format)
    presenter = ConsolePresenter()
    user_input: UserInputPort = (
        NonInteractiveUserInput() if config.non_interactive else ConsoleUserInput()
    )

    try:
        context = load_workspace(args.project_path)
    except WorkspaceError as e:
        log.error("%s", e)
        return EXIT_STARTUP_ERROR

    state_dir = config.state_dir_for(context.root)
    index = None if config.offline else PackageIndexClient(config.index_url)
    token = CancellationToken()
    try:
        analyzers = default_analyzers(config, index)
        registry = default_registry(config, analyzers, ask=user_input.ask)
        driver = OrchestrationDriver(
            context,
            registry,
            ProgressStore(state_dir),
            presenter,
            user_input,
            log_settings,
            report_dir=state_dir,
        )
        with cancel_on_sigterm(token):
            outcome = driver.run(token)
    except (StepGraphError, ProgressFormatError, PackageMapError) as e:
        log.error("%s", e)
        return EXIT_STARTUP_ERROR
    except (OperationCancelled, KeyboardInterrupt):
        presenter.warn("Upgrade cancelled; progress has been saved")
        return EXIT_CANCELLED
    finally:
        if index is not None:
            index.close()

    if outcome == RunOutcome.COMPLETED:
        presenter.success("Upgrade complete")
    else:
        presenter.info(f"Progress saved to {state_dir}; run again to resume")
    return EXIT_OK
