"""Package registry adapters and the on-disk download cache."""