"""
Match cycle pipeline.

Scoring ranks candidate pairs; pairing turns the ranked pool into couples.
"""
