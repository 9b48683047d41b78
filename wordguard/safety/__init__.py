"""Safety package.

Contains the rule-based forbidden-term matcher consulted by the interception
stage in `wordguard.core.violation_advisor` before a request goes downstream.
"""
