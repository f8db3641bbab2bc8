"""Recommendation module for BasketRec.

This module contains the interchangeable top-N recommendation algorithms,
the evaluation harness that scores them against held-out basket items, and
the grid runner used to compare parameter settings.
"""
