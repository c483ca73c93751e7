"""
Differential testing of the MIPS state transition function.

The stepper and preimage oracle modules are deployed into an embedded execution environment
at fixed addresses. Each step witness is executed against them and the resulting state hash
is checked for internal consistency, then compared with the native emulator's result.
"""
