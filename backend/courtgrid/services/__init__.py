"""
Services Layer

Grid engine logic that:
- Accepts domain inputs (blocks, court refs, days, option objects)
- Returns domain outputs (rails, capacity curves, mutation results)
- Does NOT depend on HTTP request/response objects
- Does NOT mutate engine state outside TemporalGridEngine mutation calls
"""
