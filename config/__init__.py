# config/__init__.py
"""
Configuration package exposing environment-specific Flask config classes.
"""

from .base import Config, DevelopmentConfig, ProductionConfig, TestingConfig

__all__ = ["Config", "DevelopmentConfig", "TestingConfig", "ProductionConfig"]
