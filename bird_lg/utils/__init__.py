"""Shared utilities: configuration, logging, errors, timeouts, subprocesses"""
