"""
OpenPGP wire format: packet framing, message objects and ASCII armor.
"""
