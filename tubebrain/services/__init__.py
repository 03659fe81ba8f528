"""Markov model, storage, harvesting and YouTube client."""
