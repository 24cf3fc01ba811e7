"""Lessontrack: lesson progress tracking and sync."""
