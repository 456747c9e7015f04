"""
Services — the building blocks the bootstrapper wires together.

    module_loader     names / files → Module records
    module_graph      registry + dependency walker
    import_hook       load-time notifications
    type_metadata     classes, methods, markers, tokens
    query_cache       per-module timestamp-validated cache
    query_engine      the four cached queries
    plugin_discovery  candidate probing with the verdict cache
    native_deps       native payload extraction and remap links
    activation        @on_init signature check and invocation
"""
