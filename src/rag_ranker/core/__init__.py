"""
Core Package

Shared data models, error types and text helpers.
"""
