"""Engine layer: handler chain and bounded history stacks.

The engine depends on the domain layer only. It raises domain errors;
translating them into ServiceResult is the service layer's job.
"""
