"""
Witness encodings for differential testing of the MIPS state transition function.

State and page snapshots are fixed-size byte buffers. They are persisted either as
``0x`` prefixed hex or in the compressed base64 form, and a state snapshot is committed
to by its state hash.
"""
