"""
Operations Layer

Business logic composed over database sessions:
- RegistrationTracker: keeps Player.registered in step with registration mappings
- RosterEligibilityGate: official-match registration rule for roster batches
- RosterOperations: roster storage behind the gate
- PlayerOperations: player lifecycle (always created unregistered)
"""
