"""
Context assembly service: configuration, context cache and the assembly engine.

Usage:
    from app.context_assembly import ContextAssemblyEngine

    engine = ContextAssemblyEngine(document_source, text_extractor)
    result = await engine.get_context("acme", "solicitations")
"""
