#!/usr/bin/env python3

"""
System Maintenance

A host maintenance runner that syncs and upgrades packages, backs up
directories with rsync, prunes old backups and temporary files and removes
orphaned packages, logging every step to the console and a log file.
"""

__version__ = "1.0.0"
__author__ = "System Maintenance Project"
