# Sports Stream Server Application
