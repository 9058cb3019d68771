"""Tests for the x64 decode table compiler."""
