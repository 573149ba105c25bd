#!/usr/bin/env python3
"""
Chat backend reconciliation tool
"""

__version__ = "0.1.0"

# Import the main classes and functions for easier access
from chat_reconciler.core.config import load_config
from chat_reconciler.core.context import RunRequest, Scope
from chat_reconciler.core.engine import run
from chat_reconciler.core.executor import Executor
from chat_reconciler.core.migrator import Migrator
from chat_reconciler.core.result import RunResult

# Import the backend clients
from chat_reconciler.services.source_client import SourceClient
from chat_reconciler.services.target_client import TargetClient
