"""Tests for imgprep.processing."""
