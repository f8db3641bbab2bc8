"""Data preparation module for BasketRec.

This module contains the stages that turn raw order lines into the
interaction matrix consumed by every recommender: loading, frequency
profiling, basket sampling and matrix construction.
"""
