"""Warehouse demo application."""
