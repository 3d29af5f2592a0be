# Operator tools; run with python -m backend_indexer.tools.<name>
