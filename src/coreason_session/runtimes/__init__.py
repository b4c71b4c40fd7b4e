"""Sandbox provider implementations."""
