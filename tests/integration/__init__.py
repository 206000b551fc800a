"""
Integration Tests for Homodyne
=================================

Integration tests for complete scientific workflows:
- End-to-end data analysis pipelines
- Module interaction testing
- Configuration system integration
- Output validation and consistency
- Cross-platform compatibility
"""
