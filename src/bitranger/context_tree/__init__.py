"""Context tree — namespaced markdown memories.

Layout:
    <repo>/.bitranger/
    ├── config.json                      # ProjectConfig artifact
    ├── <domain>/
    │   └── <topic>/
    │       ├── context.md               # canonical document per node
    │       └── <subtopic>/
    │           └── context.md
    └── ...

Documents may carry a ``## Relations`` section of ``@domain/topic[/subtopic]``
tokens, see ``bitranger.context_tree.relations``.
"""
