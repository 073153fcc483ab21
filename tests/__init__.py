"""
imgprep - Test Suite

Test modules are organized by package:
- tests/processing/: Tests for the pipeline, stages, transforms and loader
- tests/data/: Tests for image folder preprocessing
- tests/service/: Tests for the HTTP service
- tests/test_config.py, test_logger.py, test_cli.py: Ambient modules
"""
