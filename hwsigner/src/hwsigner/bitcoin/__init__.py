"""
Bitcoin primitives: scripts, transactions, addresses and BIP32 keys.
"""
