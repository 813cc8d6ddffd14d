"""Paged crawling subsystem.

Structure:
- base.py: common types and utilities
- engine.py: paged fetch engine with page/item concurrency
- pipeline.py: dedupe + JSONL dataset writer
"""
