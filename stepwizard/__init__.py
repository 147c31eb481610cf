"""stepwizard - headless engine for multi-step flows."""

from .engine import create_wizard, StepDefinition, StepGraph, WizardEngine

__version__ = "0.1.0"

__all__ = ['create_wizard', 'StepDefinition', 'StepGraph', 'WizardEngine']
