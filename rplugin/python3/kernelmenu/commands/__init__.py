"""
Command modules for the kernelmenu plugin.

This package contains command handlers organized by functionality:
- debug.py: Status command
- console.py: Sending code to console views
"""
