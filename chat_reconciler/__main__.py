#!/usr/bin/env python3
"""
Main execution module for the chat reconciler
"""

from chat_reconciler.cli.commands import main

if __name__ == "__main__":
    main()
