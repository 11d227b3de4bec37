"""
TPM NV memory read sample.
"""
