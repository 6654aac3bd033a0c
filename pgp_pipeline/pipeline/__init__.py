"""
Message pipelines: encoding, decoding, verification, clear-signing and inspection.
"""
