"""
Alignment module for diceclust.

This module matches the labels of two partitions through the assignment problem.
"""

from .aligner import (
    LabelAlignment,
    align_labels,
    align_confusion,
    relabel_to_reference,
    lexicographic_assignment
)

__all__ = [
    'LabelAlignment',
    'align_labels',
    'align_confusion',
    'relabel_to_reference',
    'lexicographic_assignment'
]
