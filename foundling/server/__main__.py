from foundling.server.app import main

main()
