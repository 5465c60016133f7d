"""
Architecture profiles: named layers and the dependency directions they permit.

Loaders live in ``compliance_workflow.architecture.profile``; this package root
stays import-free so the domain models can depend on the layer graph.
"""
