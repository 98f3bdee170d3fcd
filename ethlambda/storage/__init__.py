"""Table-based storage API, in-memory backend and the fork-choice store."""