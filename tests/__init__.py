"""Test suite for callgate."""
