"""
QC Inspection Platform
AI module.

Submodules:
    - gateway: Insight Gateway (provider routing, timeout, degraded results)
    - insights: summary payload and prompt construction
"""
