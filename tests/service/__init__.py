"""Tests for imgprep.service."""
