"""Tests for imgprep.data."""
