"""Remote fetching, collection walking and the job queue"""
