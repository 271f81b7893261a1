"""Tests for core exceptions, services and infrastructure views."""
