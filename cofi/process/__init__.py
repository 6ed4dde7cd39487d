from cofi.process.parallelizer import Parallelizer, Partible
