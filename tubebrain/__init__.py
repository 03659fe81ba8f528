"""
Comment brain: Markov chain text generation from trending YouTube comments.
"""
