"""
Request-time composition core: classifier, fetch pipeline, URL rewriter and
asset router, wired into the app by ``FragmentCompositionMiddleware``.
"""
