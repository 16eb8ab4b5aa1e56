"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Document chunking with overlap
- Embedding providers (OpenAI, Upstage)
- Vector indexes (in-memory FAISS, Pinecone)
- Answer generation
- The question-answering pipeline and offline Pinecone ingestion
"""
