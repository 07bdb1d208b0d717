"""
ntlm-remote-auth Test Suite

Test organization:
- unit/: Unit tests for individual modules (plus one pyspnego end-to-end test)
- property/: Property-based tests using Hypothesis
"""
