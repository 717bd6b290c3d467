"""
Support Ticket Intake System.

This package provides keyword-based classification of customer support
tickets and a bulk import pipeline for CSV, JSON and XML ticket files.
"""

__version__ = "1.0.0"
__author__ = "Automation Engineer"
