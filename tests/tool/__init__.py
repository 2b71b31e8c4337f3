"""Tests for the compose-pack command line tool."""
