from openclawd.cli import main

main()
