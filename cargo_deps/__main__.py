from cargo_deps.main import main

main()
