# SQS-triggered workers
